"""
Storefront catalog: product, settings and order models and their store.
"""
