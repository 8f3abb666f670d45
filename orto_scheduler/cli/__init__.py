"""
CLI Module - `orto` command line planner.
"""
