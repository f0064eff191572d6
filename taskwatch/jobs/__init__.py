"""Job models, merge rules and the tracker."""
