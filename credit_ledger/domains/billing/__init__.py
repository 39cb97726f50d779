"""
Credit billing domain: catalog, purchases, usage and notifications
"""
