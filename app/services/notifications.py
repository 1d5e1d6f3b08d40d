"""
Notifications — Slack webhook integration for assessment events.

Notification failure never blocks the engine.
"""
import logging
import requests

from app.config import SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')

TIER_LABELS = {
    'executive_summary': 'Executive Summary (24h)',
    'detailed_analysis': 'Detailed Analysis (48h)',
    'implementation_kit': 'Implementation Kit (72h)',
}


def notify_tier_delivered(assessment_id, outcome):
    """Post a deliverable tier assembly/upgrade to Slack."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        label = TIER_LABELS.get(outcome.tier, outcome.tier)
        verb = 'Updated' if outcome.action == 'upgraded' else 'Delivered'
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{label} {verb}"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Assessment:* {assessment_id[:8]}"},
                    {"type": "mrkdwn", "text": f"*Domains:* {outcome.domains}/12"},
                    {"type": "mrkdwn", "text": f"*Version:* {outcome.version}"},
                    {"type": "mrkdwn", "text": f"*Degraded:* {'yes' if outcome.degraded else 'no'}"},
                ]
            },
        ]
        requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)
        logger.info("Assessment %s %s notification sent", assessment_id[:8], outcome.tier)

    except Exception:
        logger.error("Failed to send delivery notification for %s", assessment_id[:8], exc_info=True)


def notify_assessment_finished(assessment):
    """Post the terminal lifecycle outcome to Slack."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        failed = assessment.status == 'failed'
        title = 'Assessment Analysis FAILED' if failed else 'Assessment Analysis Completed'
        delivered = [t for t, p in assessment.artifact_paths().items() if p]
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": title},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Assessment:* {assessment.id[:8]}"},
                    {"type": "mrkdwn", "text": f"*Deliverables:* {len(delivered)}/3"},
                ]
            },
        ]
        if failed and assessment.failure_reason:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Reason:* ```{assessment.failure_reason[:500]}```"}
            })

        requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)
        logger.info("Assessment %s outcome notification sent", assessment.id[:8])

    except Exception:
        logger.error("Failed to send outcome notification for %s", assessment.id[:8], exc_info=True)
