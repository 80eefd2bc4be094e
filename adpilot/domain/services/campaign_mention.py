"""Resolution of ``@Campaign_Name`` mention tokens in user messages."""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

from adpilot.domain.entities.campaign import TopCampaign

_MENTION_TOKEN = re.compile(r"@(\S+)")
_WHITESPACE_RUN = re.compile(r"\s+")


def mention_token(campaign_name: str) -> str:
    """Token form of a campaign name: whitespace runs become underscores."""
    return "@" + _WHITESPACE_RUN.sub("_", campaign_name.strip())


def resolve_mentions(
    text: str, campaigns: Iterable[TopCampaign]
) -> Tuple[Optional[TopCampaign], str, List[TopCampaign]]:
    """Resolve mention tokens in *text* against *campaigns*.

    Returns ``(explicit_campaign, rewritten_text, mentioned)`` where the
    explicit campaign is the first one mentioned in the text and every resolved
    token is rewritten to ``@Campaign Name``.
    """
    by_token = {mention_token(c.name): c for c in campaigns if c.name}
    if not text or not by_token:
        return None, text, []

    mentioned: List[TopCampaign] = []

    def _rewrite(match: "re.Match[str]") -> str:
        token = match.group(0)
        # Longest known token that prefixes the match ("@Summer_Sale," -> "@Summer_Sale")
        for known in sorted(by_token, key=len, reverse=True):
            if token.startswith(known):
                campaign = by_token[known]
                if campaign not in mentioned:
                    mentioned.append(campaign)
                return "@" + campaign.name + token[len(known):]
        return token

    rewritten = _MENTION_TOKEN.sub(_rewrite, text)
    return (mentioned[0] if mentioned else None), rewritten, mentioned
