"""
A11yAudit - WCAG accessibility audit pipeline
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="a11yaudit",
    version="0.1.0",
    author="Anthrasite",
    author_email="team@anthrasite.com",
    description="Queue-driven WCAG accessibility audits combining axe-core and an LLM semantic check",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/anthrasite/a11yaudit",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Quality Assurance",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "fakeredis[lua]>=2.20",
        ],
    },
    entry_points={
        "console_scripts": [
            "a11yaudit=core.cli:main",
        ],
    },
    include_package_data=True,
    package_data={
        "infra": ["lua_scripts/*.lua"],
    },
)
