from setuptools import find_packages, setup

setup(
    name="sprintforest",
    version="0.1.0",
    description="Random forests grown over SPRINT-style sorted indexes with out-of-bag estimates",
    python_requires=">=3.10",
    packages=find_packages(include=["sprintforest", "sprintforest.*"]),
    install_requires=[
        "numpy",
        "torch",
        "pandas",
        "scikit-learn",
        "joblib",
    ],
    extras_require={"test": ["pytest"]},
)
