"""MovieLens 100k recommender demo.

Two independent strategies over the same load:
- matrix factorization trained in-process on a sample of `u.data` ratings
- content-based ranking by cosine similarity of `u.item` genre flags

`RecommenderSession` is the entry point tying them together.
"""
