from setuptools import setup, find_packages

setup(
    name="outreach-followup-engine",
    version="0.1",
    packages=find_packages(include=["outreach", "outreach.*"]),
    py_modules=["main"],
    install_requires=[
        "flask",
        "flask-cors",
        "python-dotenv",
        "supabase",
        "aiohttp",
        "anthropic",
        "apscheduler>=3.9,<4",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
