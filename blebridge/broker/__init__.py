# broker/__init__.py
# Concrete brokers are imported explicitly; they pull in platform bindings.
