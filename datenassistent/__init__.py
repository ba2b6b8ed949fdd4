"""
Datenassistent - Table-Access Service

Backend for a German-language office chat assistant:
- Table access: validated, retried and audited reads and writes
- Tool dispatch: the chat tools the language model calls
- HTTP API: tool endpoints and health checks
"""

__version__ = "0.1.0"
