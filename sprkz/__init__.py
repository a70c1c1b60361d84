# -*- coding: utf-8 -*-
"""Sprkz webhook automation service."""

__version__ = "0.1.0"
