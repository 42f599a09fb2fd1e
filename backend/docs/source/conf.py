import pathlib
import sys

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent.parent))

project = 'Globe Stamp API'
copyright = '2025, Globe Stamp contributors'
author = 'Globe Stamp contributors'
release = '0.1.0'

exclude_patterns = [
    '.venv',
    'venv',
    '.pytest_cache',
    '.ruff_cache',
]

html_theme = 'alabaster'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.autosummary',
    'sphinx.ext.viewcode',
    'sphinx_autodoc_typehints',
    'myst_parser',
]

autosummary_generate = True
autosummary_imported_members = False

# Docstrings are Google style throughout globestamp.
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True
napoleon_use_param = True
napoleon_use_ivar = False

autodoc_default_options = {
    'members': True,
    'undoc-members': False,
    'show-inheritance': True,
}

autodoc_member_order = 'bysource'

# The docs build does not need a PostgreSQL client library.
autodoc_mock_imports = [
    'psycopg2',
    'psycopg2.extensions',
    'psycopg2.extras',
]

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}
