"""Helpers shared across the import service"""
