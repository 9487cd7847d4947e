"""
Bot agents: intent detection and the tool catalogue
"""
