# -*- coding: utf-8 -*-
"""
Middleware package for the Detailers University API
"""

from .errors import register_error_handlers, success_response

__all__ = [
    'register_error_handlers',
    'success_response',
]
