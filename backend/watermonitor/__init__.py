"""
Water Monitor Backend
=====================

This is the Python package for the water monitoring backend.

HOW IT'S ORGANIZED:
------------------
- models/     = Data structures (what does a reading or a device look like?)
- services/   = Workers (simulate readings, judge them, run the duty cycle, talk to the database)
- routers/    = API endpoints (HTTP and USSD)
- utils/      = Small validation helpers
- main.py     = Puts it all together and starts the server
"""
