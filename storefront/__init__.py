"""Multi-tenant storefront backend: catalog, checkout payments, orders and seller onboarding."""

__version__ = "0.1.0"
