"""
PumpPanda - Applications Package

Available Applications:
- cli: `pumppanda run | cycle | status`
"""
