"""Parley runtime components that live outside the HTTP application."""
