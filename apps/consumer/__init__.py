"""
Consumer App - Appointment Event Intake

Responsibilities:
- Long-poll the primary queue for appointment events
- Validate each payload against the required-field contract
- Map valid payloads to ReportRecord
- Delete successfully mapped messages; leave failures for redelivery
- Periodically drain the DLQ through the same pipeline

Delivery is at-least-once and unordered. Failed messages move to the DLQ
through the queue's redrive policy, not through this app.
"""
