"""
Web interface for the Mapping Editor Core.
"""
