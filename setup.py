from setuptools import setup, find_packages

setup(
    name="envctl",
    version="0.1.0",
    description="Daemon that shares environment variables between shell sessions with incremental sync",
    license="MIT",
    packages=find_packages(include=["envctl", "envctl.*"]),
    install_requires=[
        "typer>=0.12.0",
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "envctl=envctl.main:envctl",
            "envd=envctl.daemon.server:main",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
