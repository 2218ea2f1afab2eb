from __future__ import annotations

import os
import sys

from setuptools import find_packages, setup

dependencies = [
    "aiofiles==24.1.0",  # Async IO for snapshot files
    "aiohttp==3.10.11",  # HTTP server for the fee API and client for bitcoind JSON-RPC
    "anyio==4.6.2.post1",
    "click==8.1.7",  # For the CLI
    "colorlog==6.9.0",  # Adds color to logs
    "concurrent-log-handler==0.9.25",  # Concurrently log and rotate logs
    "importlib_resources==6.4.5",  # Reads the bundled initial config
    "PyYAML==6.0.2",  # Used for config file format
    "setproctitle==1.3.4",  # Gives the service process a readable name
    "typing-extensions==4.12.2",  # typing backports like Protocol and Self
]

dev_dependencies = [
    "build==1.2.2",
    "coverage==7.6.4",
    "pytest==8.3.3",
    "pytest-cov==5.0.0",
    "pytest-mock==3.14.0",
    "isort==5.13.2",
    "flake8==7.1.1",
    "mypy==1.13.0",
    "black==24.10.0",
    "types-aiofiles==24.1.0.20240626",
    "types-pyyaml==6.0.12.20240917",
    "types-setuptools==75.2.0.20241025",
]

kwargs = dict(
    name="augur-reference",
    description="Bitcoin mempool snapshot collector and fee estimate HTTP service.",
    python_requires=">=3.9, <4",
    keywords="bitcoin mempool fee estimation",
    install_requires=dependencies,
    extras_require=dict(
        dev=dev_dependencies,
    ),
    packages=find_packages(include=["augurref", "augurref.*"]),
    entry_points={
        "console_scripts": [
            "augur_reference = augurref.server.start_augur:main",
        ]
    },
    package_data={
        "augurref.util": ["initial-*.yaml"],
    },
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    zip_safe=False,
)

if "setup_file" in sys.modules:
    # include dev deps in regular deps when run in snyk
    dependencies.extend(dev_dependencies)

if len(os.environ.get("AUGUR_SKIP_SETUP", "")) < 1:
    setup(**kwargs)  # type: ignore
