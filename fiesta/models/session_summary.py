from tortoise import fields, models


class SessionSummary(models.Model):
    """Кэш саммари сессии. Остальные поля сессии вычисляются из сообщений."""
    id = fields.IntField(pk=True)
    user_id = fields.CharField(max_length=128)
    session_key = fields.CharField(max_length=128, description="ID сессии или ключ дня")
    summary = fields.TextField()
    source_count = fields.IntField(description="Сколько сообщений вошло в саммари")
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "session_summaries"
        unique_together = (("user_id", "session_key"),)
