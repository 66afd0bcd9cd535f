"""Meeting relay domain -- source contracts, admission, detection, payloads, and the processor.

Provides the pure pieces (OrganizationDetector, validate_templates,
PayloadBuilder) and the MeetingProcessor that composes them with delivery,
state and notifications.
"""
