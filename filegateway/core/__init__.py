"""
Core file handling logic.

This module is framework-agnostic - it doesn't import FastAPI or any
storage SDK. Key derivation and delivery rules can be tested in isolation.
"""
