# /tgauth/utils/metrics.py

from prometheus_client import Counter, Histogram

# All Prometheus metrics used by the service are declared here.

# Verification
otp_codes_issued_counter = Counter('otp_codes_issued_total', 'Verification codes issued')
otp_verifications_counter = Counter('otp_verifications_total', 'Verification attempts by outcome', ['result'])
identity_links_counter = Counter('identity_links_total', 'Phone to chat bindings by outcome', ['result'])

# Telegram
telegram_messages_counter = Counter('telegram_messages_total', 'Outbound Telegram calls', ['method', 'status'])
telegram_updates_counter = Counter('telegram_updates_total', 'Inbound Telegram updates', ['kind'])

# Admin
admin_actions_counter = Counter('admin_actions_total', 'Admin conversation transitions', ['step'])
projects_created_counter = Counter('projects_created_total', 'Projects created', ['source'])

# Infrastructure
database_operations_counter = Counter('database_operations_total', 'Database operations', ['operation', 'status'])
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
