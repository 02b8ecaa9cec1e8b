"""
HTTP API 層（FastAPI routers）
"""
