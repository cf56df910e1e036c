# Borrowers module: profiles and trust score
