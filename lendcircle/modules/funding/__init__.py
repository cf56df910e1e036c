# Funding module: ledger, minimum investment policy and admission control
