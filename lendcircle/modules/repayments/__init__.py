# Repayments module
