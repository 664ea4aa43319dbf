from .stripe_gateway import AuthorizationHold, SavedCard, StripeGateway

__all__ = ["AuthorizationHold", "SavedCard", "StripeGateway"]
