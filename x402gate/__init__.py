"""
Pay-per-request gate verifying USDC payments for priced API resources.
"""
