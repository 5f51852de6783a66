"""URL, robots.txt, HTTP and HTML primitives used by the crawler."""
