"""
Terminal presentation for the metrics feed and stress-test runs.
"""
