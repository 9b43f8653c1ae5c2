from azure.mgmt.subscription import SubscriptionClient


class SubscriptionNotFoundError(LookupError):
    pass


def resolve_subscription(credential, subscription, subscription_client=None):
    """Find a subscription by id or display name.

    Display names are not unique; the first match wins.
    """
    if not subscription:
        raise SubscriptionNotFoundError("No subscription given")
    subscription_client = subscription_client or SubscriptionClient(credential)
    wanted = subscription.strip().lower()
    for s in subscription_client.subscriptions.list():
        if s.subscription_id.lower() == wanted or (s.display_name or "").lower() == wanted:
            return s
    raise SubscriptionNotFoundError(f"Subscription {subscription} not found or not accessible")
