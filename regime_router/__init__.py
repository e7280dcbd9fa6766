"""
Regime-adaptive strategy routing: streaming regime detection, per-asset
strategy routing, and cost-aware backtest / walk-forward validation.
"""

VERSION = "2.0.0"
