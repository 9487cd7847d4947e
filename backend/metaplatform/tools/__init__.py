"""
Sandboxed tool runtimes
"""
