"""
DLQ App - Operator Tooling

Responsibilities:
- Report queue depths for the primary queue and the DLQ
- Show DLQ messages with their validation verdict
- Re-inject DLQ messages into the primary queue
- Send hand-written payloads for manual re-injection

Automatic reprocessing lives in apps.consumer.dlq_reprocessor; this app is
for messages that still fail there.
"""
