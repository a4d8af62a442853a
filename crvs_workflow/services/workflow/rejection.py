"""
Structured rejection reasons.

Rejections are exchanged as ``RejectionReason`` objects. Stored task notes
still use the query-string text ``reason=<reasons>&comment=<comment>``;
``to_legacy_text`` and ``from_legacy_text`` convert between the two.
"""

from urllib.parse import parse_qs, urlencode

from pydantic import BaseModel, Field


class RejectionReason(BaseModel):
    """Why a declaration was rejected."""

    reasons: list[str] = Field(default_factory=list)
    comment: str = ""

    def to_legacy_text(self) -> str:
        """Encode as the note text read by existing clients.

        Example:
            >>> RejectionReason(reasons=["duplicate", "other"], comment="seen twice").to_legacy_text()
            'reason=duplicate%2Cother&comment=seen+twice'
        """
        return urlencode({"reason": ",".join(self.reasons), "comment": self.comment})

    @classmethod
    def from_legacy_text(cls, text: str) -> "RejectionReason":
        """Parse a stored ``reason=...&comment=...`` note.

        Text that is not query-string encoded is kept whole as the comment.
        """
        if "reason=" not in text and "comment=" not in text:
            return cls(comment=text)
        parsed = parse_qs(text, keep_blank_values=True)
        reason = parsed.get("reason", [""])[0]
        comment = parsed.get("comment", [""])[0]
        reasons = [item for item in reason.split(",") if item]
        return cls(reasons=reasons, comment=comment)
