# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys

# Add project to path for autodoc
sys.path.insert(0, os.path.abspath(".."))

# Setup Django before importing models
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "example.project.settings")
import django
django.setup()

from reservoir import __version__

# -- Project information -----------------------------------------------------

project = "Reservoir"
copyright = "2025, Reservoir Contributors"
author = "Reservoir Contributors"
release = __version__
version = ".".join(__version__.split(".")[:2])

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",           # Auto-document code
    "sphinx.ext.napoleon",          # Google-style docstrings
    "sphinx.ext.intersphinx",       # Links to Django docs
    "sphinx.ext.viewcode",          # Links to source code
    "sphinx_copybutton",            # Copy button in code blocks
    "sphinxcontrib.httpdomain",     # REST API docs
]

exclude_patterns = ["_build", "Thumbs.db", ".DS_Store", "*.md"]

master_doc = "index"
language = "pt_BR"

# -- Options for HTML output -------------------------------------------------

html_theme = "furo"

html_theme_options = {
    "sidebar_hide_name": False,
    "navigation_with_keys": True,
}

html_title = "Reservoir Documentation"
html_short_title = "Reservoir"

# -- Options for autodoc -----------------------------------------------------

autodoc_default_options = {
    "members": True,
    "undoc-members": True,
    "show-inheritance": True,
    "member-order": "bysource",
}

autodoc_typehints = "description"
autodoc_class_signature = "separated"

# -- Options for intersphinx -------------------------------------------------

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "django": (
        "https://docs.djangoproject.com/en/5.1/",
        "https://docs.djangoproject.com/en/5.1/objects.inv",
    ),
}

# -- Options for Napoleon (Google-style docstrings) --------------------------

napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True
napoleon_include_private_with_doc = False
napoleon_use_admonition_for_examples = True
napoleon_use_param = True
napoleon_use_rtype = True
