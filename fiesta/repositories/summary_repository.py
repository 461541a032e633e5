from typing import Optional

from fiesta.models.session_summary import SessionSummary


class SummaryRepository:
    async def get(self, user_id: str, session_key: str) -> Optional[SessionSummary]:
        return await SessionSummary.filter(user_id=user_id, session_key=session_key).first()

    async def save(self, user_id: str, session_key: str, summary: str, source_count: int) -> SessionSummary:
        cached = await self.get(user_id, session_key)
        if cached:
            cached.summary = summary
            cached.source_count = source_count
            await cached.save()
            return cached
        return await SessionSummary.create(
            user_id=user_id, session_key=session_key, summary=summary, source_count=source_count
        )
