"""External service connectors: Shopify Admin API, GA4, storefront pages"""
