from scheduling_core.integrations.client_factory import get_profile_client, get_wallet_client

__all__ = ["get_profile_client", "get_wallet_client"]
