"""Order fulfillment processor for the digital-account storefront."""
