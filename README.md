# specmarket

Domain services for a marketplace that matches clients with video and
content-production specialists: editors, motion designers, UGC creators,
photographers, SMM specialists and so on.

The package holds the business rules. Storage, the search engine, the
key-value store and the LLM provider are passed in as objects that follow
small protocols (`typing.Protocol` classes in each module). The services
can run against real backends or against in-memory fakes. The package has
no dependencies outside the standard library.

## Modules

- `specmarket.search` builds search bodies with `build_query`. Its hard
  filters are published specialists and skills. Its soft filters are city
  and rate. Categories go into a post-filter, so the category facet still
  shows every category. `SearchService.search` does two more things.
  When a text search finds nothing, it runs again without the text and
  marks the result `broadened`. When a first page has fewer than five
  hits and soft filters were set, it runs again without those filters and
  returns the extra hits as `similar`, with their names in `relaxed`.
  The module also has `category_stats`, `count_by_category`,
  `load_docs_by_ids` and `parse_category_aggs`. `parse_category_aggs`
  returns an empty list for missing or malformed input.
- `specmarket.search_params` turns query-string parameters into a `Query`
  (`parse_query`, `split_csv`). It accepts either a raw query string or a
  mapping. Numbers that do not parse are ignored.
- `specmarket.mappings` holds the index settings and mappings for the
  specialist index (`index_mapping`) and for the video feed index
  (`feed_video_mapping`).
- `specmarket.indexing` keeps the indexes in step with the primary store:
  - `SpecialistIndexer.reconcile` indexes a published specialist and
    removes any other.
  - `FeedIndexer.reconcile_videos` deletes all of a specialist's video
    documents, then writes fresh ones.
  - `FeedIndexer.bootstrap` reconciles every published specialist.
- `specmarket.ratelimit` provides fixed-window rate limiting over several
  windows at once (`Limiter`, `Window`, `RateLimitedError`, `window_key`).
  A client with an `eval` method gets an atomic server-side check. A
  client with only `get`, `incr` and `pexpire` gets a check under a
  process-local lock. A rejected attempt does not use up any quota.
  `client_ip` takes the host out of a `host:port` address.
- `specmarket.llm` has the request and response shapes (`MessagesRequest`,
  `MessagesResponse`, `build_request`) and `APIError`. It also has
  `is_transient_error`: timeouts, OS-level network errors and 5xx, 408 or
  429 answers count as transient; cancellation does not.
- `specmarket.profilecheck` has `ProfileCheckService.check`. It sends the
  bio and the display name to the LLM in parallel and retries once on
  transient failures. Scores are clamped to 0..100. It raises
  `EmptyInputError` when both fields are empty and `LLMDisabledError`
  when no provider with a key is configured.
- `specmarket.summarize` has `SummarizeService.run`, which searches for
  candidates and asks the LLM to pick and explain the best ones. When the
  query equals a candidate's display name (ignoring case and spacing), it
  returns that candidate without calling the LLM.
- `specmarket.summarize_cache` has `SummaryCache`, a short-lived cache of
  summarize results. The key comes from `cache_key`, which ignores the
  order of categories and skills and ignores the offset. Any failure is
  treated as a cache miss.
- `specmarket.reviews` has `ReviewService`, which validates reviews and
  handles create, update, delete and paginated listing.
- Profiles are split over four modules:
  - `specmarket.profile_models` holds the data classes.
  - `specmarket.profile_rules` holds the validation rules and errors.
  - `specmarket.profiles` has `ProfileService`. It patches a profile
    atomically under an optimistic-lock version, and guards publishing
    with e-mail verification and an optional profile check.
  - `specmarket.portfolio` has `PortfolioService` for portfolio videos
    (at most 20 per specialist) and presigned upload tickets for videos
    and images.

## Example

```python
from specmarket.search import build_query
from specmarket.search_params import parse_query

query = parse_query({"q": ["motion"], "category": ["editor,motion"], "city": ["Moscow"]})
body = build_query(query, [], False)
```

`body` is a search request ready to send. It filters on published
specialists and on the city, puts the two categories in a post-filter,
and adds a category facet aggregation.

## What the package does not do

The package has no HTTP server or route handlers, and no command-line
entry point. It has no concrete database store, search-engine client,
key-value client or LLM client. The caller supplies these as objects that
match the protocols the services expect.

## Running the tests

```
pip install -e ".[test]"
pytest
```