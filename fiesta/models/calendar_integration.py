from tortoise import fields, models


class CalendarIntegration(models.Model):
    """Подключение Google Calendar пользователя"""
    id = fields.IntField(pk=True)
    user_id = fields.CharField(max_length=128)
    provider = fields.CharField(max_length=32, default="google")
    access_token = fields.TextField(null=True)
    refresh_token = fields.TextField(null=True)
    calendar_id = fields.CharField(max_length=255, default="primary")
    sync_enabled = fields.BooleanField(default=True)
    last_sync = fields.DatetimeField(null=True)

    class Meta:
        table = "calendar_integrations"
        unique_together = (("user_id", "provider"),)
