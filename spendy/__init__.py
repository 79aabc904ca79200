"""
Spendy - Core Package

The non-UI core of the Spendy personal-finance client: the session and
token lifecycle, expense category inference and spending analytics.

DESIGN PRINCIPLES:
1. One owner for the session state
2. Secrets live in the secure store only, never in logs
3. A 401 anywhere ends the session
4. Analytics are pure functions of the fetched data
5. Storage and platform capabilities are swappable
"""

__version__ = "1.0.0"
