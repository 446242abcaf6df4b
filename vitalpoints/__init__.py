"""VitalPoints - gamification points engine for health tracking"""

__version__ = "1.0.0"
