"""
auth — User authentication module.

Provides:
  • Signed token creation & verification (HMAC-SHA256)
  • Password hashing (bcrypt)
  • Register / Login API routes
  • ``get_current_user`` FastAPI dependency
"""
