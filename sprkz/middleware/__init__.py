# -*- coding: utf-8 -*-
"""
Middleware package for the Sprkz admin API
"""

from .error_handlers import register_error_handlers

__all__ = [
    'register_error_handlers',
]
