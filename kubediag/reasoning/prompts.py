"""Prompt templates for the kubediag reasoning client.

The system prompt fixes the persona and the strict two-field JSON schema;
the user prompt carries the pod, the trigger reason, and the log tail.
"""

from __future__ import annotations

SYSTEM_PROMPT: str = """\
You are a senior cloud-native architect and Kubernetes SRE.
You receive information about a failing pod together with the tail of its logs.
Determine the root cause of the failure and give an actionable fix.

Return ONLY a JSON object with exactly these two fields:
1. "rootCause": one or two sentences that state the root cause concisely.
2. "suggestion": concrete troubleshooting or remediation steps (for example
   raising a memory limit, fixing a ConfigMap key, correcting an image tag).

Do not output Markdown, code fences, or any explanatory text outside the JSON object.\
"""

USER_PROMPT_TEMPLATE: str = """\
Failing pod: {pod_name}
Trigger reason: {trigger_reason}
Log tail (stdout/stderr):
---
{logs}
---\
"""


def build_messages(pod_name: str, trigger_reason: str, logs: str) -> list[dict[str, str]]:
    """Return the two-message chat prompt for one diagnosis."""
    user_prompt = USER_PROMPT_TEMPLATE.format(
        pod_name=pod_name,
        trigger_reason=trigger_reason or "unspecified",
        logs=logs,
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
