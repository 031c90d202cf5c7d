# -*- coding: utf-8 -*-
"""Detailers University guest course purchase backend."""

__version__ = "1.0.0"
