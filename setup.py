from setuptools import setup, find_packages

setup(
    name="seo_content_analyzer",
    version="1.0.0",
    packages=find_packages(where=".", exclude=["tests", "tests.*"]),
    package_dir={"": "."},
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "python-dotenv",
        "httpx",
        "parsel",
        "lxml",
        "lxml_html_clean",
        "textstat<0.7.9",
        "pydantic>=2",
        "numpy",
        "scikit-learn"
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio"
        ],
        "embeddings": [
            "sentence-transformers"
        ]
    }
)
