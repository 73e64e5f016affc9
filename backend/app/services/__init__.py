"""Application services: group directory, membership ledger, access guard and message store."""
