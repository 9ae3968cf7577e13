"""OpenAI assistant bridge: admin provisioning and a chat widget API over a knowledge-store backed assistant."""
