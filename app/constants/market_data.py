"""Static market snapshot used to render instant reports without provider calls."""

DEFAULT_SYMBOL = "AAPL"

STOCKS: dict[str, dict] = {
    # US Tech Giants
    "AAPL": {
        "name": "Apple Inc.",
        "price": 189.84,
        "change": 2.15,
        "changePct": 1.14,
        "marketCap": 2950000000000,
        "pe": 31.2,
        "volume": 52346789,
        "high52w": 199.62,
        "low52w": 124.17,
        "dividend": 0.96,
        "beta": 1.29,
        "eps": 6.08,
        "sector": "Technology",
        "industry": "Consumer Electronics",
    },
    "MSFT": {
        "name": "Microsoft Corporation",
        "price": 415.26,
        "change": 3.84,
        "changePct": 0.93,
        "marketCap": 3100000000000,
        "pe": 35.8,
        "volume": 21543210,
        "high52w": 430.82,
        "low52w": 245.61,
        "dividend": 3.00,
        "beta": 0.93,
        "eps": 11.61,
        "sector": "Technology",
        "industry": "Software",
    },
    "GOOGL": {
        "name": "Alphabet Inc.",
        "price": 140.12,
        "change": -0.88,
        "changePct": -0.62,
        "marketCap": 1750000000000,
        "pe": 25.4,
        "volume": 28976543,
        "high52w": 155.34,
        "low52w": 88.56,
        "dividend": 0,
        "beta": 1.04,
        "eps": 5.52,
        "sector": "Technology",
        "industry": "Internet Services",
    },
    "AMZN": {
        "name": "Amazon.com Inc.",
        "price": 168.35,
        "change": 1.92,
        "changePct": 1.15,
        "marketCap": 1740000000000,
        "pe": 65.3,
        "volume": 45678901,
        "high52w": 180.56,
        "low52w": 88.12,
        "dividend": 0,
        "beta": 1.15,
        "eps": 2.58,
        "sector": "Technology",
        "industry": "E-Commerce",
    },
    "META": {
        "name": "Meta Platforms Inc.",
        "price": 512.48,
        "change": 8.76,
        "changePct": 1.74,
        "marketCap": 1300000000000,
        "pe": 29.7,
        "volume": 15432198,
        "high52w": 531.44,
        "low52w": 274.38,
        "dividend": 2.00,
        "beta": 1.21,
        "eps": 17.25,
        "sector": "Technology",
        "industry": "Social Media",
    },
    "NVDA": {
        "name": "NVIDIA Corporation",
        "price": 875.43,
        "change": 24.18,
        "changePct": 2.84,
        "marketCap": 2160000000000,
        "pe": 68.9,
        "volume": 38976543,
        "high52w": 974.94,
        "low52w": 238.93,
        "dividend": 0.16,
        "beta": 1.68,
        "eps": 12.71,
        "sector": "Technology",
        "industry": "Semiconductors",
    },
    # Financial Sector
    "JPM": {
        "name": "JPMorgan Chase & Co.",
        "price": 195.67,
        "change": 1.23,
        "changePct": 0.63,
        "marketCap": 567000000000,
        "pe": 11.2,
        "volume": 8765432,
        "high52w": 201.33,
        "low52w": 134.78,
        "dividend": 4.60,
        "beta": 1.09,
        "eps": 17.47,
        "sector": "Financial",
        "industry": "Banking",
    },
    # Indian Stocks
    "RELIANCE": {
        "name": "Reliance Industries",
        "price": 2438.25,
        "change": 15.40,
        "changePct": 0.64,
        "marketCap": 165000000,
        "pe": 24.8,
        "volume": 2834567,
        "high52w": 2850.00,
        "low52w": 2180.00,
        "dividend": 8.50,
        "beta": 1.23,
        "eps": 98.31,
        "sector": "Energy",
        "industry": "Oil & Gas",
        "currency": "INR",
    },
    "TCS": {
        "name": "Tata Consultancy Services",
        "price": 3845.60,
        "change": -28.30,
        "changePct": -0.73,
        "marketCap": 140000000,
        "pe": 28.5,
        "volume": 1234567,
        "high52w": 4250.00,
        "low52w": 3150.00,
        "dividend": 43.00,
        "beta": 0.85,
        "eps": 134.93,
        "sector": "Technology",
        "industry": "IT Services",
        "currency": "INR",
    },
    "INFY": {
        "name": "Infosys Limited",
        "price": 1425.80,
        "change": 12.45,
        "changePct": 0.88,
        "marketCap": 59000000,
        "pe": 26.3,
        "volume": 3456789,
        "high52w": 1650.00,
        "low52w": 1180.00,
        "dividend": 34.00,
        "beta": 0.79,
        "eps": 54.18,
        "sector": "Technology",
        "industry": "IT Services",
        "currency": "INR",
    },
}

INDICES: dict[str, dict] = {
    "SPX": {"name": "S&P 500", "value": 4783.45, "change": 28.67, "changePct": 0.60},
    "DJI": {"name": "Dow Jones", "value": 37863.80, "change": 156.23, "changePct": 0.41},
    "IXIC": {"name": "NASDAQ", "value": 15087.36, "change": 98.45, "changePct": 0.66},
    "NIFTY": {"name": "NIFTY 50", "value": 21453.10, "change": 87.35, "changePct": 0.41},
    "SENSEX": {
        "name": "BSE SENSEX",
        "value": 70865.10,
        "change": 285.94,
        "changePct": 0.41,
    },
}

# Broad terms mapped to a canonical basket when a prompt names no symbol.
# Checked in order; first match wins.
KEYWORD_BASKETS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("tech", ("AAPL", "MSFT", "GOOGL")),
    ("bank", ("JPM",)),
    ("financ", ("JPM",)),
    ("india", ("RELIANCE", "TCS", "INFY")),
)
