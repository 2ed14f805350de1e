from dairyledger.models.user import NotificationPreferences, SubscriptionSlot, User, UserRole


class TestUser:
    def test_customer_role_value(self):
        assert UserRole.CUSTOMER.value == "user"

    def test_is_customer(self):
        assert User(name="Asha").is_customer
        assert not User(name="Admin", role=UserRole.ADMIN).is_customer

    def test_default_preferences_enable_every_channel(self):
        prefs = User(name="Asha").notification_preferences
        assert prefs == NotificationPreferences(sms=True, email=True, push=True)

    def test_default_subscription_is_empty_and_active(self):
        user = User(name="Asha")
        assert user.subscription.is_active
        assert user.subscription.items == []

    def test_subscription_slots(self):
        assert {s.value for s in SubscriptionSlot} == {"morning", "evening", "both"}
