# Currency module: exchange-rate cache and formatting
