"""
oauth — multi-tenant OAuth2 authorization-code + PKCE bridge.

Provides:
  • PKCE code generation and per-tenant verifier storage
  • AES-256-GCM encryption of refresh tokens at rest
  • Upsert-by-tenant token storage with decrypt-on-read
  • The start / callback / session flow on top of a provider client
"""
