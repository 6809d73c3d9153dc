# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Sphinx configuration for the derived-fields documentation."""

project = "derived-fields"
author = "Derived Fields Contributors"
release = "0.1.0"

extensions: list[str] = ["sphinx.ext.autodoc"]

html_theme = "alabaster"
