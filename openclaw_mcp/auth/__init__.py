"""
OAuth 2.1 authorization server for the remote transports.

- clients: the single pre-registered client
- server: authorization codes, token issuance, rotation, revocation
- routes: Starlette endpoints (/authorize, /token, /revoke, metadata)
- middleware: bearer token enforcement on the MCP endpoints
"""
