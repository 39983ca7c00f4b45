#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
StockERP Setup Configuration
============================

Setup script for the StockERP inventory and order management backend.

Features:
- Version detection from the package __init__.py, git tags or environment
- Dependency management with extras for tests and database drivers
- Console script entry point

Author: StockERP Development Team
License: MIT
Version: 1.0.0
"""

import ast
import os
import re
import subprocess
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union, Any

from setuptools import setup, find_packages

log = logging.getLogger("stockerp.setup")

# ==================== PACKAGE METADATA ====================

PACKAGE_NAME = "stockerp"
PACKAGE_DIR = Path(__file__).parent
SOURCE_DIR = PACKAGE_DIR / PACKAGE_NAME
README_FILE = PACKAGE_DIR / "README.md"
REQUIREMENTS_DIR = PACKAGE_DIR / "requirements"

AUTHOR_NAME = "StockERP Development Team"
AUTHOR_EMAIL = "dev@stockerp.local"
LICENSE_NAME = "MIT"

SHORT_DESCRIPTION = "Inventory and order management backend with write-through entity caches"
LONG_DESCRIPTION_CONTENT_TYPE = "text/markdown"

# ==================== UTILITY FUNCTIONS ====================


def read_file(file_path: Union[str, Path], encoding: str = 'utf-8') -> str:
    """
    Read content from a file, returning an empty string when it is missing.

    Args:
        file_path: Path to the file to read
        encoding: Character encoding to use (default: utf-8)
    """
    file_path = Path(file_path)
    try:
        return file_path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Could not read {file_path}: {e}")
        return ""


def load_requirements(filename: str, requirements_dir: Optional[Path] = None) -> List[str]:
    """
    Load requirements from a requirements file.

    Handles comments, empty lines and ``-r`` includes.

    Args:
        filename: Name of the requirements file (e.g., 'base.txt')
        requirements_dir: Directory containing requirements files

    Returns:
        List[str]: List of requirement specifications
    """
    if requirements_dir is None:
        requirements_dir = REQUIREMENTS_DIR

    req_file = requirements_dir / filename
    if not req_file.exists():
        return []

    requirements = []
    for line in read_file(req_file).splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('-r '):
            requirements.extend(load_requirements(line[3:].strip(), requirements_dir))
            continue
        if ' #' in line:
            line = line.split(' #')[0].strip()
        if line:
            requirements.append(line)

    log.info(f"Loaded {len(requirements)} requirements from {req_file}")
    return requirements


def get_version_from_init() -> Optional[str]:
    """
    Extract the version from the package __init__.py using AST parsing,
    without importing the package.
    """
    init_file = SOURCE_DIR / "__init__.py"
    if not init_file.exists():
        log.warning(f"__init__.py not found at {init_file}")
        return None

    try:
        tree = ast.parse(read_file(init_file))
    except SyntaxError as e:
        log.warning(f"Error parsing __init__.py for version: {e}")
        return None

    for node in ast.walk(tree):
        if isinstance(node, ast.Assign):
            for target in node.targets:
                if (isinstance(target, ast.Name) and target.id == '__version__'
                        and isinstance(node.value, ast.Constant)):
                    return str(node.value.value)

    log.warning("No __version__ found in __init__.py")
    return None


def get_version_from_git() -> Optional[str]:
    """Get the version from the latest ``v1.2.3`` style git tag."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True,
            text=True,
            cwd=PACKAGE_DIR,
            timeout=10
        )
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        log.warning(f"Error getting version from git: {e}")
        return None

    if result.returncode != 0:
        return None

    version = result.stdout.strip().lstrip('v')
    return version if re.match(r'^\d+\.\d+\.\d+', version) else None


def get_dynamic_version() -> str:
    """
    Get package version with a fallback strategy.

    Priority order:
    1. __init__.py __version__ attribute
    2. Git tags
    3. Environment variable STOCKERP_VERSION
    4. Default version
    """
    return (
        get_version_from_init()
        or get_version_from_git()
        or os.environ.get('STOCKERP_VERSION')
        or "1.0.0"
    )


def get_long_description() -> str:
    readme_content = read_file(README_FILE) if README_FILE.exists() else ""
    return readme_content or SHORT_DESCRIPTION


# ==================== DEPENDENCY MANAGEMENT ====================

def get_core_requirements() -> List[str]:
    """Core runtime requirements for the package."""
    requirements = load_requirements('base.txt')

    if not requirements:
        requirements = [
            "fastapi>=0.104.0",
            "uvicorn[standard]>=0.24.0",
            "pydantic>=2.4.0",
            "sqlalchemy>=2.0.0",
            "pyyaml>=6.0",
            "python-dotenv>=1.0.0",
            "typer>=0.9.0",
            "rich>=13.5.0",
        ]

    return requirements


def get_test_requirements() -> List[str]:
    """Testing dependencies."""
    test_requirements = load_requirements('test.txt')

    if not test_requirements:
        test_requirements = [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.21.1",
            "httpx>=0.24.0",
        ]

    return test_requirements


def get_development_requirements() -> List[str]:
    """Development dependencies on top of the test stack."""
    dev_requirements = load_requirements('dev.txt')

    if not dev_requirements:
        dev_requirements = get_test_requirements() + [
            "black>=23.7.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.5.0",
        ]

    return dev_requirements


# ==================== PACKAGE CONFIGURATION ====================

def get_classifiers() -> List[str]:
    return [
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Topic :: Office/Business',
        'Topic :: Database',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Framework :: FastAPI',
        'Framework :: AsyncIO',
        'Environment :: Web Environment',
        'Environment :: Console',
    ]


def get_entry_points() -> Dict[str, Any]:
    return {
        'console_scripts': [
            'stockerp = stockerp.cli:app',
        ],
    }


def get_extras_require() -> Dict[str, List[str]]:
    """Optional dependencies for different use cases."""
    return {
        'test': get_test_requirements(),
        'dev': get_development_requirements(),
        'postgres': ['psycopg2-binary>=2.9.7'],
        'mysql': ['pymysql>=1.1.0'],
    }


# ==================== MAIN SETUP CALL ====================

def main():
    """Main setup function."""
    setup(
        name=PACKAGE_NAME,
        version=get_dynamic_version(),
        author=AUTHOR_NAME,
        author_email=AUTHOR_EMAIL,
        description=SHORT_DESCRIPTION,
        long_description=get_long_description(),
        long_description_content_type=LONG_DESCRIPTION_CONTENT_TYPE,
        license=LICENSE_NAME,

        packages=find_packages(exclude=['tests*', 'docs*']),
        include_package_data=True,
        zip_safe=False,

        python_requires='>=3.9',
        install_requires=get_core_requirements(),
        extras_require=get_extras_require(),

        entry_points=get_entry_points(),
        classifiers=get_classifiers(),
        keywords=['erp', 'inventory', 'orders', 'cache', 'fastapi', 'sqlalchemy'],
    )


if __name__ == '__main__':
    main()
