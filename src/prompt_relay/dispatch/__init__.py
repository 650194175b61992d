"""Transport selection and delivery to the agent process."""
