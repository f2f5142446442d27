"""realtime/ -- Authenticated WebSocket connections and event fan-out.

Layer rule: realtime/ imports from auth/ and third-party libraries only.
It does NOT import from api/. The surrounding handlers reach the hub through
app.state / Depends(), never through a module-level global.
"""
