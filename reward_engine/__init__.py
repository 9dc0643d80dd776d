"""
Reward Engine - achievement evaluation and reward issuance
"""
