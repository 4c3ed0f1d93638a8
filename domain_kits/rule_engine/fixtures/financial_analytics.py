# Financial analytics demo: portfolio value, weights, concentration alert.

INPUT_STATE = {
    "portfolio": {
        "positions": [
            {"symbol": "MSFT", "qty": 5, "price": 410},
            {"symbol": "AAPL", "qty": 10, "price": 190},
            {"symbol": "TLT", "qty": 20, "price": 95},
        ]
    },
    "thresholds": {"concentration": 0.4},
}

RULES_CONFIG = {
    "max_iterations": 5,
    "rules": [
        {
            "name": "market_value",
            "priority": 1,
            "if": "portfolio.positions.length > 0",
            "then": {
                "analytics.market_value": "{{ portfolio.positions.reduce((sum, p) => sum + p.qty * p.price, 0) }}",
            },
        },
        {
            "name": "weights",
            "priority": 2,
            "if": "analytics_market_value > 0",
            "then": {
                "analytics.weights": (
                    "{{ portfolio.positions.map(p => ({symbol: p.symbol, "
                    "weight: Math.round(p.qty * p.price / analytics.market_value * 10000) / 10000})) }}"
                ),
                "analytics.largest": "{{ analytics.weights.reduce((a, b) => b.weight > a.weight ? b : a).symbol }}",
            },
        },
        {
            "name": "concentration_alert",
            "priority": 3,
            "if": "analytics.weights.some(w => w.weight > thresholds.concentration)",
            "then": {"alerts.concentration": True},
            "else": {"alerts.concentration": False},
        },
        {
            "name": "symbols",
            "priority": 4,
            "then": {
                "analytics.symbols": "{{ portfolio.positions.map(p => p.symbol).sort().join(',') }}",
                "analytics.summary_json": (
                    "{{ JSON.stringify({value: analytics.market_value, largest: analytics.largest}) }}"
                ),
            },
        },
    ],
}
