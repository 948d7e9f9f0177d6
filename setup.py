"""
Setup script for subscription_pricing package.
"""

from setuptools import setup, find_packages

setup(
    name="subscription-pricing",
    version="1.0.0",
    description="Moteur de pricing dynamique et d'expérimentation pour plans d'abonnement",
    author="PricEye Team",
    packages=find_packages(exclude=["scripts", "scripts.*"]),
    install_requires=[
        "supabase>=2.0.0",
        "pandas>=2.0.0",
        "numpy>=1.24.0",
        "python-dotenv>=1.0.0",
        "pytz>=2023.3",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "subscription-pricing-server=subscription_pricing.server:main",
        ],
    },
    python_requires=">=3.9",
)
