"""
Simple Update Checker - Core Package
"""
