"""
loadscope: live load metrics and stress-test control for a rate-limited service.
"""

__version__ = "0.3.0"
