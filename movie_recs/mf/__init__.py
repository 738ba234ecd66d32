"""Matrix-factorization rating prediction on MovieLens 100k.

Core idea:
- Remap sparse user/movie ids to dense indices (see `movie_recs.data`)
- Train dot(user_emb, movie_emb) + biases on a sampled subset of ratings
- Predict a single (user, movie) rating, clamped to the 1..5 star range
"""
